"""
Service layer: token lifecycle, provider adapters, bot polling and orchestration.
"""
