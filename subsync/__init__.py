"""subsync: keeps payment processor subscription state and the local account record in sync."""
