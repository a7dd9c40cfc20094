"""Service layer for SalesBot.

Webhook signing and delivery, product synchronization, and the chat flow
that ties the store to the AI and commerce collaborators. Import from the
submodules directly; this package keeps no re-exports.
"""
