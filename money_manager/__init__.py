"""
Money Manager - Persistence Layer

The data access layer of a personal finance client. Every read and write is
served by the remote REST store when it is reachable and by a durable local
store when it is not.

DESIGN PRINCIPLES:
1. The session token is written only by login and register
2. Only a network failure moves work to the local store, and only once
3. Server rejections are surfaced, never absorbed
4. Every remote response is normalized before it leaves this package
"""

__version__ = "1.0.0"
__author__ = "Money Manager Team"
