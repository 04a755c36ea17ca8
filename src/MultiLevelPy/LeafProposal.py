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
Docs   - [x]
Tests  - [x]
Design - [x]

Proposal used at the leaves of the divide-and-conquer sampler.

The success probability is drawn from the conjugate Beta posterior 
Beta(alpha + k, beta + n - k), which is exactly proportional to the leaf 
target Beta(alpha, beta) x Binomial(k | n, p). The importance weight 
target / proposal is therefore the same constant for every particle, and is 
reported as 0; the constant itself (the Beta-binomial marginal) goes into the
population's normalization instead. Changing the proposal family breaks this
and requires a real weight.

The Beta(alpha, beta) prior on p is part of the leaf target seen by the 
sampler, but MultiLevelBMTreeFactor has no such term: its leaves only carry
the binomial emission and the Brownian likelihood. An MCMC run started from a
sampler draw therefore refines a slightly different joint density, one 
without the Beta factor. With the default alpha = beta = 1 the prior is flat
in p, and the two differ by the Jacobian p(1 - p) of the logit transform.
"""

from __future__ import annotations
from typing import Sequence
import numpy as np
from scipy import stats

from .BrownianModel import observation
from .Particles import Particle
from .Probability import (log_beta_binomial_normalizer, 
                          log_binomial_logit_pr, log_binomial_pr, logit)
from .Tree import Datum, Node


class MultiLevelLeafProposal:
    """
    Draws leaf particles: p from a Beta, scored under the binomial, then 
    moved to the logit scale and wrapped as an observation message.
    """

    def __init__(self, 
                 node : Node, 
                 datum : Datum, 
                 alpha : float = 1.0, 
                 beta : float = 1.0) -> None:
        """
        Args:
            node (Node): The leaf.
            datum (Datum): The leaf's observed counts.
            alpha (float, optional): Prior pseudo-count of successes. 
                                     Defaults to 1 (uniform prior on p).
            beta (float, optional): Prior pseudo-count of failures. 
                                    Defaults to 1.
        Returns:
            N/A
        """
        self.node : Node = node
        self.number_of_trials : int = datum.number_of_trials
        self.number_of_successes : int = datum.number_of_successes
        self.prior_alpha : float = alpha
        self.prior_beta : float = beta
        self.alpha : float = alpha + self.number_of_successes
        self.beta : float = beta + self.number_of_trials \
                            - self.number_of_successes

    def propose(self, 
                rng : np.random.Generator, 
                children_particles : Sequence[Particle] = ()
                ) -> tuple[float, Particle]:
        """
        Draw one leaf particle.

        Args:
            rng (np.random.Generator): The run's random source.
            children_particles (Sequence[Particle], optional): Must be empty,
                                                               leaves have 
                                                               no children.
        Returns:
            tuple[float, Particle]: The log weight (always 0, see module 
                                    docs) and the particle.
        Raises:
            ValueError: If children particles are passed in.
        """
        if len(children_particles) > 0:
            raise ValueError(f"{self} got children particles, but proposes "
                             "for a leaf")
        proposed = float(rng.beta(self.alpha, self.beta))
        transformed = logit(proposed)
        log_pi = log_binomial_logit_pr(self.number_of_trials, 
                                       self.number_of_successes, 
                                       transformed)
        log_weight = 0.0
        leaf = observation([transformed], 1, False)
        return log_weight, Particle(leaf, self.node, log_pi = log_pi)

    def log_proposal_density(self, p : float) -> float:
        return float(stats.beta.logpdf(p, self.alpha, self.beta))

    def log_target_density(self, p : float) -> float:
        """
        Unnormalized leaf target: Beta prior times binomial likelihood.
        """
        return float(stats.beta.logpdf(p, self.prior_alpha, self.prior_beta)) \
               + log_binomial_pr(self.number_of_trials, 
                                 self.number_of_successes, p)

    def log_normalization(self) -> float:
        """
        Returns:
            float: log(target / proposal), identical for every p.
        """
        return log_beta_binomial_normalizer(self.number_of_trials,
                                            self.number_of_successes,
                                            self.prior_alpha,
                                            self.prior_beta)

    def __str__(self) -> str:
        return f"leafProposal[{self.node}]"
