"""Sync core: store clients, session, cross-tab signal and view controllers."""
