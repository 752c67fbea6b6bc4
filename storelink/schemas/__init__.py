"""
schemas/ — Pydantic request/response models for the storelink API

Services return these models directly; routers use them as response_model.
"""
