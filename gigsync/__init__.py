"""GigSync: calendar sync and lineup invitations for gigs."""
