"""
Resampling Pipeline
===================

Orchestrates a complete evaluation run from a YAML configuration:
1. Partition generation
2. Resample execution per model (same partitions for every model)
3. Metric collection
4. Model comparison (paired contrasts and posterior)

Example configuration::

    project:
      name: ames-housing
    resampling:
      scheme: vfold
      v: 10
    run:
      seed: 1001
      outcome: Sale_Price
      metrics: [rmse, rsq]
      backend: thread
      worker_count: 4
    comparison:
      metric: rsq
      reference: linear_reg
      effect_size: 0.02
"""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import pandas as pd

from .comparison import (
    ModelComparator,
    PriorSpec,
    contrast,
    summarize,
    summarize_posterior
)
from .config import PipelineConfig, get_settings, load_config
from .execution import ResampleExecutor, ResampleResult, RunOptions
from .metrics import collect_models, failures
from .partitioning import Partition, generate, scheme_from_config

logging.basicConfig(
    level=getattr(logging, get_settings().LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class ResamplingPipeline:
    """Complete resampling evaluation and comparison pipeline."""

    def __init__(
        self,
        config: Union[str, Path, Dict[str, Any], PipelineConfig],
        data: pd.DataFrame,
        models: Mapping[str, Any]
    ):
        """
        Initialize pipeline.

        Parameters
        ----------
        config : str, Path, dict or PipelineConfig
            YAML path or configuration mapping
        data : pd.DataFrame
            Dataset shared read-only by every partition
        models : Mapping[str, Any]
            Model name -> adapter with ``fit(data)`` and ``predict(fitted, data)``
        """
        self.config = config if isinstance(config, PipelineConfig) else load_config(config)
        self.data = data
        self.models = dict(models)

        if len(self.models) < 1:
            raise ValueError("At least one model is required")

        # Initialize containers
        self.partitions: Optional[List[Partition]] = None
        self.results: Dict[str, List[ResampleResult]] = {}
        self.metrics: Optional[pd.DataFrame] = None
        self.contrasts: Optional[pd.DataFrame] = None
        self.posterior = None
        self.posterior_summary: Optional[pd.DataFrame] = None
        self.equivalence: Optional[pd.DataFrame] = None

        logger.info(f"Initialized pipeline for: {self.config.project.get('name')}")

    @property
    def run_options(self) -> RunOptions:
        run = self.config.run
        return RunOptions(
            seed=run.seed,
            save_predictions=run.save_predictions,
            worker_count=run.worker_count,
            backend=run.backend
        )

    def step1_generate_partitions(self) -> List[Partition]:
        """Generate the partition sequence shared by all models."""
        logger.info("=== Step 1: Generating Partitions ===")

        scheme = scheme_from_config(self.config.resampling.scheme_params())
        self.partitions = generate(scheme, len(self.data), self.config.run.seed, data=self.data)

        return self.partitions

    def step2_fit_resamples(
        self,
        cancel_event: Optional[threading.Event] = None
    ) -> Dict[str, List[ResampleResult]]:
        """Resample every model over the same partitions."""
        logger.info("=== Step 2: Fitting Resamples ===")

        if self.partitions is None:
            self.step1_generate_partitions()

        executor = ResampleExecutor(self.run_options)
        for name, model in self.models.items():
            logger.info(f"Resampling {name}")
            self.results[name] = executor.run(
                self.data,
                self.partitions,
                model.fit,
                model.predict,
                self.config.run.metrics,
                self.config.run.outcome,
                cancel_event=cancel_event
            )

            failed = failures(self.results[name])
            if len(failed):
                logger.warning(f"{name}: {len(failed)} partition(s) failed")

        return self.results

    def step3_collect_metrics(self) -> pd.DataFrame:
        """Summarize metrics per model."""
        logger.info("=== Step 3: Collecting Metrics ===")

        if not self.results:
            self.step2_fit_resamples()

        self.metrics = collect_models(self.results, summarize=True)
        return self.metrics

    def step4_compare_models(self) -> pd.DataFrame:
        """Paired contrasts, posterior fit and practical-equivalence summaries."""
        logger.info("=== Step 4: Comparing Models ===")

        if not self.results:
            self.step2_fit_resamples()

        cfg = self.config.comparison
        comparator = ModelComparator(self.results, cfg.metric)

        self.contrasts = comparator.pairwise_contrasts()

        self.posterior = comparator.fit_posterior(
            sampler=cfg.sampler,
            reference=cfg.reference,
            priors=PriorSpec(family=cfg.prior_family),
            chains=cfg.chains,
            iterations=cfg.iterations,
            seed=cfg.seed,
            transform=cfg.transform
        )
        self.posterior_summary = summarize_posterior(self.posterior, level=cfg.level)

        reference = self.posterior.reference
        rows = []
        for model in self.posterior.models:
            if model == reference:
                continue
            diff = contrast(self.posterior, model, reference, seed=cfg.seed)
            rows.append(summarize(diff, effect_size=cfg.effect_size, level=cfg.level))
        self.equivalence = pd.DataFrame(rows)

        return self.equivalence

    def run_full_pipeline(self) -> Dict[str, Any]:
        """Run all steps and return the summary."""
        self.step1_generate_partitions()
        self.step2_fit_resamples()
        self.step3_collect_metrics()

        if len(self.models) > 1:
            self.step4_compare_models()
        else:
            logger.info("Single model; skipping comparison")

        logger.info("=== Pipeline Complete ===")
        return self.summary()

    def summary(self) -> Dict[str, Any]:
        """Plain summary of everything computed so far."""
        def records(df):
            return df.to_dict('records') if df is not None else None

        return {
            'project': self.config.project.get('name'),
            'date': datetime.now().isoformat(),
            'resampling': self.config.resampling.scheme_params(),
            'partitions': len(self.partitions) if self.partitions is not None else None,
            'failures': {
                name: records(failures(results)) for name, results in self.results.items()
            },
            'metrics': records(self.metrics),
            'contrasts': records(self.contrasts),
            'posterior': records(self.posterior_summary),
            'converged': self.posterior.converged if self.posterior is not None else None,
            'equivalence': records(self.equivalence)
        }

    def save_summary(self, output_path: Union[str, Path]) -> Path:
        """Write the summary as JSON."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w') as f:
            json.dump(self.summary(), f, indent=2, default=str)

        logger.info(f"Saved pipeline summary to {output_path}")
        return output_path
