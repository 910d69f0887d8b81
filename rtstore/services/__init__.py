"""
Storage services. ``rtstore.services.store`` holds the public operations.
"""
