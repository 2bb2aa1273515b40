"""
Semantic-layer collaborators: cube metadata and table index metadata.
"""
