"""Session module.

Holds the cookie-verified identity of the signed-in user.

Services:
    - SessionStore: refresh/logout and identity change notification.
"""
