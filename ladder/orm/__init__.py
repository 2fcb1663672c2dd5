from .base import Base

# Tournament + lifecycle
from .tournament import Tournament, PointsOverride, TournamentStatus, RegistrationMode, COURTS

# Registration intake
from .registration import Registration, RegistrationPayment, RegistrationStatus

# Roster
from .team import Player, Team, TeamMember, TeamState

# Ladder
from .stage import Stage, Game
