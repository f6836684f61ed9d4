"""
Permission feature module.

Scoped permission resolution: organization, environment, project and branch
grant pools, wildcard matching and the organization-owner bypass.
"""
