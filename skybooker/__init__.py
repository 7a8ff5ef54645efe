"""
SkyBooker: booking lifecycle and payment reconciliation engine.

The engine owns the status of every flight booking and the side effects that
follow a status change:
1. Customer payment evidence moving a booking into review
2. Administrator decisions (approve, decline, complete, direct override)
3. Status emails and PDF receipts dispatched in the background

Flight search, upload storage, authentication and HTTP routing live outside
this package and talk to it through the collaborator contracts in
``skybooker.services``.
"""

__version__ = "0.1.0"
