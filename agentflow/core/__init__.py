"""Shared configuration and logging for the agentflow runtime."""
