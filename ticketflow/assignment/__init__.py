"""
Assignment Module
=================

Decides which admin is responsible for a ticket from scoped admin grants
and category owners.
"""
