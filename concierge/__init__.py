"""
Concierge - message routing and orchestration for a personal assistant.

Turns free-form chat text into a committed domain handler plus structured
parameters, guards destructive actions behind a confirmation step, resolves
references to previously shown lists and runs compound instructions as
ordered steps.
"""

__version__ = "0.4.0"
