import json
import logging

import typer
from typing_extensions import Annotated

from dotenv import load_dotenv, find_dotenv

from zookeeper_operator.config import OperatorConfig, get_operator_namespace
from zookeeper_operator.version import build_info

load_dotenv(find_dotenv())

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Zookeeper Operator: manages ZookeeperCluster ensembles on Kubernetes",
    add_completion=False,
)


@app.command()
def run(
    version: Annotated[
        bool, typer.Option("--version", help="Show version and build info, then exit")
    ] = False,
    disable_finalizer: Annotated[
        bool,
        typer.Option(
            "--disable-finalizer",
            help="Never attach the PVC cleanup finalizer to ZookeeperClusters",
        ),
    ] = False,
    standalone: Annotated[
        bool, typer.Option("--standalone", help="Run without leader election")
    ] = False,
):
    """Run the Kubernetes operator (connects to cluster)."""
    if version:
        typer.echo(json.dumps(build_info(), indent=2))
        raise typer.Exit(code=0)

    config = OperatorConfig.from_env(
        disable_finalizer=disable_finalizer or None,
        standalone=standalone or None,
    )
    if config.disable_finalizer:
        logger.warning(
            "Finalizers are disabled: PVCs of deleted clusters and scaled-down members "
            "will not be cleaned up"
        )

    operator_namespace = get_operator_namespace()
    if operator_namespace:
        logger.info(f"Operator namespace: {operator_namespace}")

    from zookeeper_operator.main import main

    main(config)
