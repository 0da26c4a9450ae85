"""Configuration, errors, keys and wiring"""
