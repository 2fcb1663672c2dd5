"""
Tournament CLI Commands

Tournament inspection: list, state, buckets
"""
import asyncio

from ladder.exceptions import LadderError


class TournamentCommand:
    """
    Tournament CLI command handler.

    Every tournament subcommand only reads, so dry_run is accepted to keep the
    handler signature shared with DbCommand and has no effect here.
    """

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def execute(self, args) -> int:
        """Execute tournament command."""
        if args.tournament_action == "list":
            return self._run(self._async_list())
        elif args.tournament_action == "state":
            return self._run(self._async_state(args.id))
        elif args.tournament_action == "buckets":
            return self._run(self._async_buckets(args.id))
        else:
            print("Error: Unknown tournament action")
            return 1

    def _run(self, job) -> int:
        try:
            asyncio.run(self._with_session(job))
            return 0
        except LadderError as e:
            print(f"Error: {e.message} ({e.code})")
            return 1
        except Exception as e:
            print(f"Error: {e}")
            return 1

    async def _with_session(self, job) -> None:
        from ladder import database

        try:
            async with database.AsyncSessionLocal() as session:
                await job(session)
        finally:
            await database.close_db()

    def _async_list(self):
        async def run(session) -> None:
            from ladder.services.tournament_service import list_tournaments

            print("=== Tournaments ===")
            tournaments = await list_tournaments(session)
            if not tournaments:
                print("No tournaments found")
                return

            print(f"\n{'ID':<5} {'Name':<30} {'Date':<12} {'Mode':<6} {'Status':<10}")
            print("-" * 66)
            for t in tournaments:
                print(
                    f"{t['id']:<5} {t['name'][:28]:<30} {t['date'] or '-':<12} "
                    f"{t['registration_mode']:<6} {t['status']:<10}"
                )
        return run

    def _async_state(self, tournament_id: int):
        async def run(session) -> None:
            from ladder.services.tournament_service import get_tournament_state

            state = await get_tournament_state(session, tournament_id)
            tournament = state["tournament"]
            print(f"=== Tournament {tournament['id']}: {tournament['name']} ({tournament['status']}) ===")
            print(f"Stages: {state['stage_count']}")

            print(f"\n{'#':<4} {'Team':<40} {'Points':<8} {'Court':<6}")
            print("-" * 60)
            for team in state["teams"]:
                court = team["current_court"] if team["current_court"] is not None else "-"
                print(f"{team['team_index']:<4} {team['name'][:38]:<40} {team['points']:<8} {court:<6}")

            if state["stage"]:
                print(f"\nStage {state['stage']['number']} (complete: {state['stage_complete']})")
                for game in state["games"]:
                    winner = game["winner_team_id"] if game["winner_team_id"] is not None else "-"
                    print(
                        f"  Court {game['court']}: {game['team_a_id']} vs {game['team_b_id']} "
                        f"winner={winner}"
                    )
        return run

    def _async_buckets(self, tournament_id: int):
        async def run(session) -> None:
            from ladder.services.tournament_service import list_solo_players

            listing = await list_solo_players(session, tournament_id)
            print(f"=== Buckets for tournament {listing['tournament_id']} ===")
            if not listing["players"]:
                print("No players")
                return

            print(f"\n{'Rank':<5} {'Bucket':<7} {'Player':<30} {'Str':<4} {'Seed':<5} {'Team':<5}")
            print("-" * 60)
            for p in listing["players"]:
                seed = p["seed_team_index"] if p["seed_team_index"] is not None else "-"
                team = p["team_index"] if p["team_index"] is not None else "-"
                print(
                    f"{p['rank'] + 1:<5} {p['bucket']:<7} {p['full_name'][:28]:<30} "
                    f"{p['strength']:<4} {seed:<5} {team:<5}"
                )
        return run
