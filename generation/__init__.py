"""
Daily Quiz Generation Pipeline
generation/

Steps:
1. Retrieval Engine     — probe-vector similarity search per category, resume fallback
2. Question Generator   — MCQ / STAR / coding synthesis via GPT + response sanitizer
3. Pipeline             — idempotent per-day orchestration over the Redis quiz cache
"""
