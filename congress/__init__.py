"""
Agent Congress

This package simulates a congress of AI debate agents with evolving
personalities, persistent memory and relationships, driven through
orchestrated debates, peer review, research committees and user votes.
"""

__version__ = "0.1.0"

# Agents
from congress.agent import AgentRecord, DebateContext, DebateMemory

# Configuration
from congress.config import AgentConfig, DebateOptions, Settings

# Debates
from congress.debate import Coalition, Committee, Debate, Phase, Turn, compute_phase

# Errors
from congress.errors import (
    CongressError,
    GenerationError,
    NotFoundError,
    PersistenceError,
    ValidationFailedError,
)

# Learning
from congress.learning import ReinforcementAdapter, plan_vote_adaptation

# Orchestration
from congress.orchestrator import DebateOrchestrator, DebateOutcome, PeerReview, VoteOutcome

# Personality
from congress.personality import PersonalityVector, Trait, TraitFamily

# Relationships
from congress.relationships import RelationshipLedger, RelationshipStatus

# Storage
from congress.db import MemoryPersister, SqlPersister
from congress.store import CongressStore

# Votes
from congress.votes import VoteLedger, VoteType

__all__ = [
    # Version
    "__version__",
    # Agents
    "AgentRecord",
    "DebateContext",
    "DebateMemory",
    # Config
    "AgentConfig",
    "DebateOptions",
    "Settings",
    # Debates
    "Coalition",
    "Committee",
    "Debate",
    "Phase",
    "Turn",
    "compute_phase",
    # Errors
    "CongressError",
    "GenerationError",
    "NotFoundError",
    "PersistenceError",
    "ValidationFailedError",
    # Learning
    "ReinforcementAdapter",
    "plan_vote_adaptation",
    # Orchestration
    "DebateOrchestrator",
    "DebateOutcome",
    "PeerReview",
    "VoteOutcome",
    # Personality
    "PersonalityVector",
    "Trait",
    "TraitFamily",
    # Relationships
    "RelationshipLedger",
    "RelationshipStatus",
    # Storage
    "CongressStore",
    "MemoryPersister",
    "SqlPersister",
    # Votes
    "VoteLedger",
    "VoteType",
]
