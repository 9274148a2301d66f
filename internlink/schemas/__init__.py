"""
Schemas module - domain documents and API request/response contracts.

- Domain: Actor, Posting, StudentProfile, Application, ChangeEvent
- Requests: what the API accepts
- Responses: what the API returns
"""
