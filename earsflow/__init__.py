"""earsflow - tooling for the EARS skill workflow.

Routes free-text requests to skill documents, loads skill context within a
token budget, and manages git worktrees and project archives.
"""

__version__ = "0.1.0"
