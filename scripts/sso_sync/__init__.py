"""Google Workspace to AWS SSO directory sync.

Reads groups, users and group membership from the Google Admin Directory
API and reconciles them into AWS IAM Identity Center through its SCIM
endpoint. Runs as a periodic batch job (Lambda, scheduler loop, or CLI).
"""
