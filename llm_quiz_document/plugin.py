from . import db
from typing import Any, List

import llm  # type: ignore

hookimpl = llm.hookimpl


def _load_graph(document: str) -> Any:
    import click
    from .facts import FactParseError
    from .graph import FactGraph
    from .keys import KeyDerivationError
    from .structured import load_document

    try:
        return FactGraph.from_sentences(load_document(document))
    except (FactParseError, KeyDerivationError) as e:
        raise click.ClickException(f"Could not load document '{document}': {e}")


@hookimpl  # type: ignore[misc]
def register_commands(cli: Any) -> None:
    import click

    @cli.command("quiz-init-db")  # type: ignore[misc]
    def init_db() -> None:
        """Initialize the quiz document store."""
        db.init_db()
        click.echo("Database initialized.")

    @cli.command("quiz-keys")  # type: ignore[misc]
    @click.argument("document", type=click.Path(exists=True, dir_okay=False))
    def list_keys(document: str) -> None:
        """List every reviewable key in a document."""
        graph = _load_graph(document)
        for key in graph:
            click.echo(f"{graph.fact(key).fact_type.value:<11} {key}")

    @cli.command("quiz-learn")  # type: ignore[misc]
    @click.argument("document", type=click.Path(exists=True, dir_okay=False))
    @click.argument("keys", nargs=-1)
    @click.option("--all", "learn_all", is_flag=True, help="Learn every key in the document")
    def learn(document: str, keys: List[str], learn_all: bool) -> None:
        """Start reviewing KEYS (or the whole document with --all)."""
        from .review import learn as learn_keys
        from .session import utc_now

        graph = _load_graph(document)
        wanted = graph.keys() if learn_all else list(keys)
        unknown = [k for k in wanted if k not in graph]
        if unknown:
            raise click.ClickException(f"Not in document: {', '.join(unknown)}")
        learned = learn_keys(db.DocumentStore(), wanted, utc_now())
        click.echo(f"Learned {len(learned)} key(s); {len(wanted) - len(learned)} already known.")

    @cli.command("quiz-unlearn")  # type: ignore[misc]
    @click.argument("keys", nargs=-1, required=True)
    def unlearn(keys: List[str]) -> None:
        """Forget KEYS so they read as unknown again."""
        from .review import unlearn as unlearn_keys

        removed = unlearn_keys(db.DocumentStore(), keys)
        click.echo(f"Unlearned {len(removed)} key(s).")

    @cli.command("quiz-status")  # type: ignore[misc]
    @click.argument("document", type=click.Path(exists=True, dir_okay=False))
    def status(document: str) -> None:
        """Show predicted recall for every key, most urgent first."""
        from .recall import half_life
        from .scheduler import rank_keys
        from .session import utc_now
        from .sync import SyncBridge

        graph = _load_graph(document)
        bridge = SyncBridge(db.DocumentStore(), graph.keys())
        with bridge:
            for key, recall in rank_keys(bridge.models, utc_now()):
                model = bridge.models[key]
                if model is None:
                    click.echo(f"   unknown            {key}")
                else:
                    click.echo(f"{recall:8.1%}  {half_life(model):8.1f}h  {key}")

    @cli.command("quiz-history")  # type: ignore[misc]
    @click.argument("key")
    def history(key: str) -> None:
        """Show recorded quiz events for KEY."""
        from .review import events_for

        events = events_for(db.DocumentStore(), key)
        if not events:
            click.echo(f"No quiz events for '{key}'")
            return
        for event in events:
            kind = "active " if event.active else "passive"
            outcome = "✅" if event.result else "❌"
            response = f"  ({event.response})" if event.response else ""
            click.echo(f"{event.timestamp.isoformat()}  {kind}  {outcome}{response}")

    @cli.command("quiz-study")  # type: ignore[misc]
    @click.argument("document", type=click.Path(exists=True, dir_okay=False))
    def study(document: str) -> None:
        """Quiz the most urgent key until you quit (empty answer or 'q')."""
        from .exercises import QuizKind
        from .review import ReviewError
        from .session import Feedback, Idle
        from .study import StudySession

        graph = _load_graph(document)
        with StudySession(graph, db.DocumentStore()) as session:
            state = session.start()
            stopped = False
            while not isinstance(state, Idle):
                if isinstance(state, Feedback):
                    if not click.confirm("Continue?", default=True):
                        stopped = True
                        state = session.end()
                        break
                    state = session.start()
                    continue

                quiz = session.current_quiz()
                if quiz is None:
                    break
                click.echo(f"\n{quiz.prompt}")
                if quiz.hints:
                    click.echo(f"Hint: {quiz.hints}")
                label = "Your answer (y/n)" if quiz.kind is QuizKind.COMPREHENSION else "Your answer"
                response = click.prompt(label, default="", show_default=False)
                if response.strip().lower() in ("", "q"):
                    stopped = True
                    state = session.end()
                    break

                try:
                    answer = session.answer(response)
                except ReviewError:
                    click.echo("🔄 That key was unlearned meanwhile, picking another.")
                    state = session.start()
                    continue

                if answer.correct:
                    click.echo("🎉 Correct!")
                else:
                    click.echo(f"❌ Expected: {', '.join(quiz.accepted) or 'yes'}")
                if quiz.context:
                    click.echo(f"   {quiz.context}")
                state = answer.state

            if not stopped:
                click.echo("🎉 Nothing left to review! All caught up!")
