"""
Doctor-facing backend of the consultorio: authentication, patients,
appointments, prescriptions and the operator data tooling.
"""
