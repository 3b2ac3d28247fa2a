"""concierge.core

Pipeline stages (normalizer, routers, planner, orchestrator) and the shared
config, logging and time-boxing utilities.
"""
