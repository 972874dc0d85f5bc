"""
Shared Components

Configuration, constants, exceptions, logging and models used by the
server, client and discovery packages.
"""
