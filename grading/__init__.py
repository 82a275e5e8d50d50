"""
Answer grading against an existing daily quiz.

- star_validator.py  — per-step STAR grading (S, T, A, R)
- code_validator.py  — single-shot code review
- feedback.py        — legacy open-ended feedback for pre-STAR quizzes
- progression.py     — S→T→A→R unlock policy applied by the calling layer
"""
