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

Joint density of the multi-level Brownian model, laid out as a tree of 
factors that mirrors the data tree. Each factor owns one real number, its 
'contents': the branch variance at an internal node, or the imputed 
logit-scale trait at a leaf. An MCMC driver changes contents in place and 
asks any factor for log_density(), which is always computed at the root:

    log prior(variances) + log Brownian likelihood(imputed traits) 
        + log binomial emission(data | logistic(imputed traits))

Invalid states (a non-positive variance, a variance outside the prior's 
support) evaluate to -inf rather than raising, so a driver simply rejects 
them.
"""

from __future__ import annotations
import math
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, Mapping

from .BrownianModel import BrownianMessage, Combination, combine, observation
from .Logger import SampleSink
from .Options import MultiLevelModelOptions
from .Particles import Particle
from .Probability import log_binomial_logit_pr, logit
from .Tree import MultiLevelDataset, Node

DEFAULT_CONTENTS : float = 0.01

#########################
#### EXCEPTION CLASS ####
#########################

class ModelConfigurationError(Exception):
    """
    This exception is raised when a tree factor is built with options it does
    not support.
    """

    def __init__(self, message : str = "Unsupported model options") -> None:
        """
        Initialize the exception with an error message.

        Args:
            message (str, optional): A custom error message. Defaults to 
                                     "Unsupported model options".
        Returns:
            N/A
        """
        self.message = message
        super().__init__(self.message)

#######################
#### RESULT TYPE ######
#######################

@dataclass(frozen = True)
class LogDensity:
    """
    Either a log density, or -inf together with the reason it is invalid.
    """
    value : float
    reason : str | None = None

    @property
    def is_valid(self) -> bool:
        return self.value > -math.inf

    @classmethod
    def invalid(cls, reason : str) -> LogDensity:
        return cls(-math.inf, reason)

    def __add__(self, other : LogDensity) -> LogDensity:
        if not self.is_valid:
            return self
        if not other.is_valid:
            return other
        return LogDensity(self.value + other.value)

########################
#### INITIALIZATION ####
########################

class Initialization(ABC):
    """
    Source of starting values for the contents of every factor.
    """

    @abstractmethod
    def get_leaf(self, node : Node) -> float:
        """
        *ABSTRACT METHOD*

        Returns:
            float: Starting logit-scale trait of a leaf.
        """
        pass

    @abstractmethod
    def get_variance(self, node : Node) -> float:
        """
        *ABSTRACT METHOD*

        Returns:
            float: Starting branch variance of an internal node.
        """
        pass


class InitFromSMC(Initialization):
    """
    Start the chain from one joint sample of the divide-and-conquer sampler,
    ie the ancestry of one root particle.
    """

    def __init__(self, smc_sample : Mapping[Node, Particle]) -> None:
        self.smc_sample : Mapping[Node, Particle] = smc_sample

    def get_leaf(self, node : Node) -> float:
        return self.smc_sample[node].value()

    def get_variance(self, node : Node) -> float:
        return self.smc_sample[node].variance

######################
#### FACTOR CLASS ####
######################

class MultiLevelBMTreeFactor:
    """
    One node of the factor tree. Building the root builds the whole tree.
    """

    def __init__(self, 
                 dataset : MultiLevelDataset,
                 node : Node = None,
                 model_options : MultiLevelModelOptions = None,
                 init : Initialization = None,
                 parent : MultiLevelBMTreeFactor = None) -> None:
        """
        Args:
            dataset (MultiLevelDataset): The tree and its observations.
            node (Node, optional): The node this factor stands for. Defaults 
                                   to the dataset's root.
            model_options (MultiLevelModelOptions, optional): Model options. 
                        Defaults to MultiLevelModelOptions().
            init (Initialization, optional): Starting values. Defaults to 
                        None, in which case leaves start at the logit of the
                        smoothed empirical rate and variances at 0.01.
            parent (MultiLevelBMTreeFactor, optional): Parent factor, set by
                        the parent while it builds its children.
        Returns:
            N/A
        Raises:
            ModelConfigurationError: If model_options.use_transform is False.
        """
        if model_options is None:
            model_options = MultiLevelModelOptions()
        if not model_options.use_transform:
            raise ModelConfigurationError("The Brownian tree factor is only "
                                          "defined on the logit scale, "
                                          "use_transform must be True")
        
        self.dataset : MultiLevelDataset = dataset
        self.node : Node = node if node is not None else dataset.root
        self.model_options : MultiLevelModelOptions = model_options
        self._parent = weakref.ref(parent) if parent is not None else None
        
        self.children : list[MultiLevelBMTreeFactor] = [
            MultiLevelBMTreeFactor(dataset, child, model_options, init, self)
            for child in dataset.get_children(self.node)
        ]
        
        if init is not None:
            if self.is_leaf():
                self.contents : float = float(init.get_leaf(self.node))
            else:
                self.contents : float = float(init.get_variance(self.node))
        elif self.is_leaf():
            datum = dataset.get_datum(self.node)
            self.contents : float = logit(datum.empirical_rate())
        else:
            self.contents : float = DEFAULT_CONTENTS

    @property
    def parent(self) -> MultiLevelBMTreeFactor | None:
        if self._parent is None:
            return None
        return self._parent()

    def is_leaf(self) -> bool:
        return len(self.children) == 0

    def root(self) -> MultiLevelBMTreeFactor:
        factor = self
        while factor.parent is not None:
            factor = factor.parent
        return factor

    def factors(self) -> Iterator[MultiLevelBMTreeFactor]:
        """
        Iterate over this factor and every factor below it, parents first.
        """
        yield self
        for child in self.children:
            yield from child.factors()

    def log_density(self) -> float:
        """
        Returns:
            float: The joint log density of the whole tree (evaluated at the
                   root, whichever factor it is called on). -inf if the 
                   current contents are invalid.
        """
        return self.evaluate().value

    def evaluate(self) -> LogDensity:
        """
        Same as log_density(), but keeps the reason an invalid state was 
        rejected.

        Returns:
            LogDensity: The joint log density.
        """
        root = self.root()
        if root is not self:
            return root.evaluate()
        
        prior = root._log_variance_prior_density()
        if not prior.is_valid:
            return prior
        brownian = root._log_bm_density()
        if not brownian.is_valid:
            return LogDensity.invalid("Invalid branch variance")
        if not brownian.message.log_likelihood > -math.inf:
            return LogDensity.invalid("Brownian likelihood is not a number")
        return prior + LogDensity(brownian.message.log_likelihood) \
               + root._log_emission_density()

    def _log_variance_prior_density(self) -> LogDensity:
        if self.is_leaf():
            return LogDensity(0.0)
        value = self.model_options.variance_prior.log_density(self.contents)
        if not value > -math.inf:
            return LogDensity.invalid(f"Variance {self.contents} at "
                                      f"{self.node} is outside the prior's "
                                      "support")
        total = LogDensity(value)
        for child in self.children:
            total = total + child._log_variance_prior_density()
        return total

    def _log_emission_density(self) -> LogDensity:
        if self.is_leaf():
            datum = self.dataset.get_datum(self.node)
            value = log_binomial_logit_pr(datum.number_of_trials, 
                                          datum.number_of_successes,
                                          self.contents)
            if not value > -math.inf:
                return LogDensity.invalid(f"Data at {self.node} impossible "
                                          "under the imputed rate")
            return LogDensity(value)
        total = LogDensity(0.0)
        for child in self.children:
            total = total + child._log_emission_density()
        return total

    def _log_bm_density(self) -> Combination:
        # Messages carry the cumulative log-likelihood, so the root's message
        # already includes every intermediate merge.
        if self.is_leaf():
            return Combination(observation([self.contents], 1, False), 0.0)
        messages : list[BrownianMessage] = []
        for child in self.children:
            combination = child._log_bm_density()
            if not combination.is_valid:
                return combination
            messages.append(combination.message)
        return combine(messages, self.contents)

    def log_samples(self, n_levels : int, sink : SampleSink, 
                    iteration : int, log_weight : float = 0.0) -> None:
        """
        Report the contents of this factor and of its descendants down to 
        n_levels levels (this factor being the first level).

        Args:
            n_levels (int): How many levels to report. Nothing is written 
                            if n_levels < 1.
            sink (SampleSink): Where to write.
            iteration (int): Iteration tag.
            log_weight (float, optional): Log importance weight attached to
                        every record. Defaults to 0.
        Returns:
            N/A
        """
        if n_levels < 1:
            return
        name = "imputed" if self.is_leaf() else "variance"
        sink.write(name, self.node, self.contents, iteration, log_weight)
        for child in self.children:
            child.log_samples(n_levels - 1, sink, iteration, log_weight)

    def __repr__(self) -> str:
        return f"MultiLevelBMTreeFactor[{self.node}, contents={self.contents}]"
