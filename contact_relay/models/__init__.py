from .contact import ContactSubmission, EmailEnvelope
