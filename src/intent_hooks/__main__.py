"""
Entry point for running intent_hooks as a module.

Allows running the governance server via:
    python -m intent_hooks
"""

from intent_hooks.server import main

if __name__ == "__main__":
    main()
