"""
Lookbook REST API.

A FastAPI facade over a Firestore document store serving feed items, images,
categories, grouped item lists and AI cards.
"""
