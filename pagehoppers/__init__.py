"""
Page Hoppers API package.

A FastAPI service where parents register and create child accounts, children
log the books they start and finish, and both can fetch a reading summary.
Persistence goes through the ``DbClient`` abstraction in ``pagehoppers.db``.
"""
