#! /usr/bin/env python
# -*- coding: utf-8 -*-

##############################################################################
##  -- MultiLevelPy --
##  Library for Bayesian Inference of Brownian Traits on Hierarchical Trees
##
##  Copyright 2025 Mark Kessler, Luay Nakhleh.
##  All rights reserved.
##
##  See "LICENSE.txt" for terms and conditions of usage.
##
##  If you use this work or any portion thereof in published work,
##  please cite it as:
##
##     Mark Kessler, Luay Nakhleh. 2025.
##
##############################################################################

""" 
Author : Mark Kessler
Last Edit : 10/18/26
First Included in Version : 0.1.0

Command line driver: load a csv dataset, run the divide-and-conquer sampler,
optionally refine with Metropolis-Hastings started from one SMC sample, and 
write the samples out as csv.
"""

from __future__ import annotations
import argparse
import logging
import math
import os
import sys
import numpy as np

from .DivideConquer import DegeneratePopulationError, DivideConquerMCAlgorithm
from .Logger import CsvSampleSink
from .MetropolisHastings import (MetropolisHastings,
                                 MetropolisHastingsException, RandomWalkKernel)
from .Options import (ConfigurationError, DcSmcOptions, 
                      ExponentialVariancePrior, MultiLevelModelOptions, 
                      ResamplingPolicy, UniformVariancePrior, VariancePrior)
from .Tree import MultiLevelDataset, TreeError
from .TreeFactor import InitFromSMC, MultiLevelBMTreeFactor

logger = logging.getLogger(__name__)


def pos_int(x : str) -> int:
    x = int(x)
    if x < 1:
        raise argparse.ArgumentTypeError('value must be a positive integer')
    return x

def nonneg_int(x : str) -> int:
    x = int(x)
    if x < 0:
        raise argparse.ArgumentTypeError(
                'value must be a non-negative integer')
    return x

def pos_float(x : str) -> float:
    x = float(x)
    if x <= 0:
        raise argparse.ArgumentTypeError(
                'value must be a positive floating point number')
    return x

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
            prog = "multilevelpy",
            description = "Posterior inference for a Brownian motion over a "
                          "tree with binomial observations at the leaves.")
    parser.add_argument('--input-data', required = True,
            help = 'csv file: hierarchy columns, then trials and successes')
    parser.add_argument('--population-size', type = pos_int, default = 1000,
            help = 'number of particles per node')
    parser.add_argument('--seed', type = int, default = 1,
            help = 'seed of the random number generator')
    parser.add_argument('--variance-prior', 
            choices = ('exponential', 'uniform'), default = 'exponential',
            help = 'prior family of branch variances')
    parser.add_argument('--rate', type = pos_float, default = 1.0,
            help = 'rate of the exponential variance prior')
    parser.add_argument('--max-variance', type = pos_float, default = 10.0,
            help = 'upper bound of the uniform variance prior')
    parser.add_argument('--resampling', 
            choices = [policy.value for policy in ResamplingPolicy], 
            default = ResamplingPolicy.ALWAYS.value,
            help = 'when to resample a node population')
    parser.add_argument('--ess-threshold', type = float, default = 0.5,
            help = 'relative ESS below which the ess policy resamples')
    parser.add_argument('--mcmc-iterations', type = nonneg_int, default = 0,
            help = 'Metropolis-Hastings sweeps after SMC (0 to skip)')
    parser.add_argument('--mcmc-scale', type = pos_float, default = 0.5,
            help = 'standard deviation of the random walk proposals')
    parser.add_argument('--log-depth', type = nonneg_int, default = 2,
            help = 'number of tree levels written to the sample files')
    parser.add_argument('--output', default = '.',
            help = 'directory the sample files are written to')
    parser.add_argument('-v', '--verbose', action = 'store_true',
            help = 'log per-node diagnostics')
    return parser

def variance_prior_from_args(args : argparse.Namespace) -> VariancePrior:
    if args.variance_prior == 'uniform':
        return UniformVariancePrior(args.max_variance)
    return ExponentialVariancePrior(args.rate)

def run(args : argparse.Namespace) -> None:
    """
    Execute one run described by parsed command line arguments.
    """
    dataset = MultiLevelDataset.from_csv(args.input_data)
    logger.info("Loaded %s: %d leaves, %d internal nodes", args.input_data,
                len(dataset.leaves()), len(dataset.internal_nodes()))
    
    prior = variance_prior_from_args(args)
    options = DcSmcOptions(population_size = args.population_size,
                           resampling = ResamplingPolicy(args.resampling),
                           ess_threshold = args.ess_threshold,
                           variance_prior = prior)
    rng = np.random.default_rng(args.seed)
    os.makedirs(args.output, exist_ok = True)
    
    smc = DivideConquerMCAlgorithm(dataset, options)
    root_population = smc.sample(rng)
    
    # Unless the root was resampled its particles are weighted: every row
    # carries its particle's log weight, zero weight particles are skipped.
    with CsvSampleSink(os.path.join(args.output, 'smc_samples.csv')) as sink:
        for index, particle in enumerate(root_population):
            log_weight = float(root_population.log_weights[index])
            if log_weight == -math.inf:
                continue
            factor = MultiLevelBMTreeFactor(
                dataset,
                model_options = MultiLevelModelOptions(prior),
                init = InitFromSMC(particle.ancestry()))
            factor.log_samples(args.log_depth, sink, index, log_weight)
    
    if args.mcmc_iterations > 0:
        factor = MultiLevelBMTreeFactor(
            dataset,
            model_options = MultiLevelModelOptions(prior),
            init = InitFromSMC(smc.sample_tree(rng)))
        path = os.path.join(args.output, 'mcmc_samples.csv')
        with CsvSampleSink(path) as sink:
            MetropolisHastings(factor, 
                               RandomWalkKernel(args.mcmc_scale),
                               args.mcmc_iterations, 
                               sink, 
                               args.log_depth).run(rng)

def main(argv : list[str] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level = logging.DEBUG if args.verbose else logging.INFO,
        format = "%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        run(args)
    except (TreeError, ConfigurationError, DegeneratePopulationError,
            MetropolisHastingsException) as err:
        logger.error("%s", err)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
