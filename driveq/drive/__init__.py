"""Google Drive access - OAuth flow and authenticated API sessions"""
