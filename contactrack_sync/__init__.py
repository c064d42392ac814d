"""
contactrack_sync - Google Drive backup synchronization for ContacTrack contacts.

Keeps a local contact list reconciled with JSON snapshots stored in a
dedicated Google Drive folder.
"""

__version__ = "0.1.0"
