"""
Authorization feature module.

Holds the fixed permission catalog, tenant-scoped roles, the tenant scope
resolver and the ordered authorization decision engine used by every
resource handler.
"""
