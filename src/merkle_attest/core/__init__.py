"""
Merkle Attest - Core Configuration, Logging and Auth
"""
