"""compliance_engine.integrations — external workflow system gateways.

Executed actions reach calendars, mail services and task trackers only
through a gateway in this package, never directly from services or
blueprints.

Current gateways:
  workflow_gateway.WorkflowGateway — calendar / email / task management
"""
