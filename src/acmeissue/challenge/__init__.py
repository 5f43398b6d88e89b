"""Challenge solver plug-ins and their registry."""
