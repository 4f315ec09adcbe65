"""
Generic CRUD over the request bus: entity contract, dispatch and HTTP routes.
"""
