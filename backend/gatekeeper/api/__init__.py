# Gatekeeper API
