"""
Client-side session handling.

- `tokens`: access-token persistence (TokenStore)
- `gate`: explicit auth-flow marker (AuthFlowGate)
- `conflict`: one-session-per-account negotiation
- `state`: observable auth state for UI collaborators
- `heartbeat`: periodic session-check while signed in
"""
