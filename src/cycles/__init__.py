"""Revalidation cycle lifecycle.

Owns the three-state cycle (active → completed → next active), the
point-in-time evidence snapshot captured at completion, the write-once
submission audit trail, and the pure expiry evaluators used by the UI.
"""
