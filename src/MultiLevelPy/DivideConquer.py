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

Divide-and-Conquer Sequential Monte Carlo over a multi-level binomial tree.

The tree is traversed once, in post-order. Leaves draw particles from the 
leaf proposal. An internal node builds each of its particles by picking one 
particle from every child population, drawing a branch variance, and merging
the children's Brownian messages; the merge's log-likelihood increment is the
new particle's weight. Populations are then resampled according to the 
configured policy before the parent consumes them.

All randomness comes from the single generator passed to sample(), so a fixed
seed reproduces a run exactly. Draws are made sequentially, node by node.
"""

from __future__ import annotations
import logging
import math
import numpy as np

from .BrownianModel import combine
from .LeafProposal import MultiLevelLeafProposal
from .Options import DcSmcOptions, ResamplingPolicy
from .Particles import Particle, ParticlePopulation
from .Tree import MultiLevelDataset, Node

logger = logging.getLogger(__name__)

#########################
#### EXCEPTION CLASS ####
#########################

class DegeneratePopulationError(Exception):
    """
    This exception is raised when every particle at a node has weight -inf,
    so there is nothing left to resample from. The run can not continue.
    """

    def __init__(self, node : Node, message : str = None) -> None:
        """
        Args:
            node (Node): The node whose population collapsed.
            message (str, optional): A custom error message. Defaults to one 
                                     naming the node.
        Returns:
            N/A
        """
        self.node = node
        if message is None:
            message = f"All particle weights are -inf at node {node}"
        self.message = message
        super().__init__(self.message)

##########################
#### SAMPLER CLASS #######
##########################

class DivideConquerMCAlgorithm:
    """
    The divide-and-conquer particle sampler.
    """

    def __init__(self, 
                 dataset : MultiLevelDataset, 
                 options : DcSmcOptions = None) -> None:
        """
        Args:
            dataset (MultiLevelDataset): The tree and its leaf observations.
            options (DcSmcOptions, optional): Run configuration. Defaults to 
                                              DcSmcOptions().
        Returns:
            N/A
        """
        self.dataset : MultiLevelDataset = dataset
        self.options : DcSmcOptions = options if options is not None \
                                      else DcSmcOptions()
        self.leaf_proposals : dict[Node, MultiLevelLeafProposal] = {
            leaf : MultiLevelLeafProposal(leaf, 
                                          dataset.get_datum(leaf),
                                          self.options.leaf_prior_alpha,
                                          self.options.leaf_prior_beta)
            for leaf in dataset.leaves()
        }
        
        # Final (post-resampling) population of every node of the last run
        self.populations : dict[Node, ParticlePopulation] = {}

    def sample(self, rng : np.random.Generator) -> ParticlePopulation:
        """
        Run the sampler over the whole tree.

        Args:
            rng (np.random.Generator): The only source of randomness.
        Returns:
            ParticlePopulation: The root's final population.
        Raises:
            DegeneratePopulationError: If some node ends up with no particle 
                                       of positive weight.
        """
        self.populations = {}
        root_population = self._sample_node(self.dataset.root, rng)
        logger.info("DC-SMC done over %d nodes: root ESS = %.1f, "
                    "log normalization estimate = %.4f",
                    self.dataset.size(), root_population.ess(),
                    root_population.log_normalization)
        return root_population

    def sample_tree(self, rng : np.random.Generator) -> dict[Node, Particle]:
        """
        Draw one joint sample over the tree from the last run's root 
        population.

        Args:
            rng (np.random.Generator): Random source for the pick.
        Returns:
            dict[Node, Particle]: A particle for every node.
        """
        if self.dataset.root not in self.populations:
            raise RuntimeError("sample() must be run before sample_tree()")
        return self.populations[self.dataset.root].sample(rng).ancestry()

    def _sample_node(self, node : Node, 
                     rng : np.random.Generator) -> ParticlePopulation:
        children = self.dataset.get_children(node)
        if len(children) == 0:
            population = self._propose_leaf(node, rng)
        else:
            child_populations = [self._sample_node(child, rng) 
                                 for child in children]
            population = self._propose_internal(node, child_populations, rng)
        
        if population.is_degenerate():
            raise DegeneratePopulationError(node)
        
        ess = population.ess()
        if self._should_resample(population, ess):
            logger.debug("Node %s: ESS = %.1f, resampling", node, ess)
            population = population.resample(rng)
        else:
            logger.debug("Node %s: ESS = %.1f", node, ess)
        
        self.populations[node] = population
        return population

    def _propose_leaf(self, node : Node, 
                      rng : np.random.Generator) -> ParticlePopulation:
        proposal = self.leaf_proposals[node]
        particles : list[Particle] = []
        log_weights : list[float] = []
        for _ in range(self.options.population_size):
            log_weight, particle = proposal.propose(rng)
            particles.append(particle)
            log_weights.append(log_weight)
        return ParticlePopulation(node, particles, log_weights, 
                                  proposal.log_normalization())

    def _propose_internal(self, 
                          node : Node,
                          child_populations : list[ParticlePopulation],
                          rng : np.random.Generator) -> ParticlePopulation:
        size = self.options.population_size
        prior = self.options.variance_prior
        proposal = self.options.proposal()
        
        picks = [population.sample_indices(rng, size) 
                 for population in child_populations]
        
        particles : list[Particle] = []
        log_weights : list[float] = []
        for i in range(size):
            chosen = tuple(population.particles[pick[i]] 
                           for population, pick in zip(child_populations, 
                                                       picks))
            variance = proposal.sample(rng)
            combination = combine([child.message for child in chosen], 
                                  variance)
            log_weight = combination.log_likelihood
            if combination.is_valid and proposal is not prior:
                log_weight += prior.log_density(variance) \
                              - proposal.log_density(variance)
            particles.append(Particle(combination.message, node, 
                                      variance = variance, 
                                      children = chosen))
            log_weights.append(log_weight)
        
        population = ParticlePopulation(node, particles, log_weights)
        if not population.is_degenerate():
            population.log_normalization = \
                sum(child.log_normalization for child in child_populations) \
                + population.log_mean_weight()
        else:
            population.log_normalization = -math.inf
        return population

    def _should_resample(self, population : ParticlePopulation, 
                         ess : float) -> bool:
        # Equal weights carry no degeneracy to correct.
        if population.is_uniform():
            return False
        policy = self.options.resampling
        if policy is ResamplingPolicy.ALWAYS:
            return True
        if policy is ResamplingPolicy.ESS:
            return ess < self.options.ess_threshold * len(population)
        return False
