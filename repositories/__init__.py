"""
repositories/ - Data Access Layer
==================================
Each repository encapsulates all SQL queries for a specific domain entity.
Repositories receive raw data from the database and return domain model objects,
and translate driver errors into the exceptions in repositories.exceptions.
"""
