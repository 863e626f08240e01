"""agentflow: an execution runtime for declaratively configured agents."""

__version__ = "0.1.0"
