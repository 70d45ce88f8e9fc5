"""
Permission management feature module.

Position-based access control for clinic staff: every user starts from the
default permissions of their position, overlaid with time-bounded per-user
grants and revocations. Staff can request extra permissions; managers review
those requests.
"""
