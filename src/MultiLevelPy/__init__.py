#! /usr/bin/env python
# -*- coding: utf-8 -*-

##############################################################################
##  -- MultiLevelPy --
##  Library for Bayesian Inference of Brownian Traits on Hierarchical Trees
##
##  Copyright 2025 Mark Kessler, Luay Nakhleh.
##  All rights reserved.
##############################################################################

"""
MultiLevelPy - Brownian motion on trees with binomial leaves

Divide-and-Conquer SMC and an MCMC tree factor for hierarchical binomial data.
"""

# Data
from .Tree import (Datum, LeafNode, InternalNode, MultiLevelDataset, 
                   TreeError)

# Configuration
from .Options import (
    ConfigurationError,
    VariancePrior,
    UniformVariancePrior,
    ExponentialVariancePrior,
    ResamplingPolicy,
    DcSmcOptions,
    MultiLevelModelOptions
)

# Inference
from .BrownianModel import (BrownianMessage, BrownianModelError, Combination,
                            observation, combine)
from .Particles import Particle, ParticlePopulation
from .LeafProposal import MultiLevelLeafProposal
from .DivideConquer import DivideConquerMCAlgorithm, DegeneratePopulationError
from .TreeFactor import (
    MultiLevelBMTreeFactor,
    Initialization,
    InitFromSMC,
    LogDensity,
    ModelConfigurationError
)
from .MetropolisHastings import (
    MetropolisHastings,
    MetropolisHastingsException,
    RandomWalkKernel,
    MCMCSummary
)
from .Logger import SampleSink, MemorySampleSink, CsvSampleSink

__version__ = "0.1.0"
__author__ = "Mark Kessler"
