"""
Engagement pipeline: normalization, aggregation and summarization.
"""
