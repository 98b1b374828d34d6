"""Authentication collaborators of the request client.

Learn: Two pieces, kept apart on purpose:
1. store — holds the current credential, answers "is it still usable?"
   and "what header do I send?"
2. flow — talks to the backend's auth routes: login, refresh, logout.

The request client only sees the store's read side and the flow's
refresh()/logout(), so either can be replaced in tests.
"""
