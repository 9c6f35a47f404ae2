"""
Approval Workflow Engine.

One workflow per submitted document version: ordered steps, each with named assignees whose
decisions are write-once. A single rejection vetoes the whole workflow.
"""

