"""
Domain layer: models, directive catalog, configuration and errors.
"""
