"""
Correlate package: link pull requests, branches and tickets into contributions.
"""

from .branches import BranchResolver
from .catalog import ContributionCatalog
from .linker import TicketMatcher, TicketNotFoundError

__all__ = ["BranchResolver", "ContributionCatalog", "TicketMatcher", "TicketNotFoundError"]
