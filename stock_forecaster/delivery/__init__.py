"""
Delivery collaborator — renders a finished Digest and emails it.

Modules:
  formatters    — subject / plain-text / HTML / CLI-table rendering
  email_sender  — SMTP submission (EMAIL_USER / EMAIL_PASSWORD in .env)
"""
