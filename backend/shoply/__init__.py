"""Application package for the Shoply e-commerce backend.

This package exposes the models, repositories, services and HTTP layer
used by the FastAPI application (catalog, cart, orders, addresses and
auth). Individual modules contain the concrete implementations and
documentation.
"""
