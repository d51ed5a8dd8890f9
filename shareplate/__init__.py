"""
SharePlate backend package.

This package provides a FastAPI application for a food-donation
marketplace: donors list surplus food, recipients request it, and donors
accept or reject those requests. Listings and requests live in MongoDB and
callers are identified with Firebase ID tokens.
"""
