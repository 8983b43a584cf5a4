"""
Geographic hierarchy package.

- models: GeographicArea, AreaDetail and request/response models.
- tree: AreaTree, the iterative read model over parent links.
- batch: Bulk descendant, ancestor and detail lookups.
- service: Area administration with cycle and reference checks.
"""
