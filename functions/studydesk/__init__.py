"""
StudyDesk backend package.

A FastAPI service over three owner-scoped collections (classes,
transactions, tasks) with store-side statistics, guarded by a Firebase
bearer-token gate.
"""
