"""
Interfaces shared by the buildkernel components and the feature modules.
"""
