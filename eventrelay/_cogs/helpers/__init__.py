"""
Internal helpers without a domain of their own: typing shims, versions.

They know nothing about Kubernetes, events, or the delivery destinations.
"""
