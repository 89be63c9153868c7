"""
Pure domain rules: roles, status machines, badges and side-effect descriptions
"""
