"""
Infrastructure
==============

Database engine and sessions, the model registry and the SQLAlchemy
unit of work.
"""
