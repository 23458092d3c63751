"""
Theory quiz session engine with a Discord front end.
"""
