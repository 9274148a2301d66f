"""
InternLink Application Workflow
Status workflow and real-time synchronization for internship applications.

Architecture:
- MongoDB: Application documents (resume attached inline, base64)
- PostgreSQL: Postings and student profiles (read only lookups)
- Notification bus: In-process fan-out of every change to live views
"""

__version__ = "1.0.0"
