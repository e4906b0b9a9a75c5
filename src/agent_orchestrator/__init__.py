"""
Agent Orchestrator - conversation orchestration core for tool-using agents.
"""

__version__ = "0.1.0"
