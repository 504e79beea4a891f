"""
All the structures exchanged between the layers of the relay.

They are purely data-holding. No external calls or any i/o activities
are done here; the structures are built from and into the raw JSON data
of Kubernetes API and of the delivery destinations.
"""
