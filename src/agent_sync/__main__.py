"""Allow ``python -m agent_sync``; used to spawn the detached daemon."""

from .cli import main

if __name__ == "__main__":
    main()
