"""Allow running the client as `python -m nailgun_client`."""

from .cli import main

main()
