"""Smart accounts, session keys and deployment"""
